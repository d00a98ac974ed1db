"""HTTP surface of the book tutor."""
