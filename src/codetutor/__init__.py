"""Codetutor - Team-aware pull request review.

This package reviews pull-request diffs against a team's learned coding
conventions, explains every finding in plain language, and prepares
delivery-ready review comments and a summary.
"""

__version__ = "0.1.0"
