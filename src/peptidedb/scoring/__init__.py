"""Evidence grading and vendor trust scoring."""
