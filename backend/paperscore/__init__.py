"""PaperScore - automated scoring of handwritten exam papers."""
