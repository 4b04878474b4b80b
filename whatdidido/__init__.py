"""What Did I Do: local storage and analytics for categorized screenshot samples."""

__version__ = "1.2.0"
