"""Command-line sub-applications for Codetutor."""
