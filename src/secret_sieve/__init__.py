"""secret-sieve: find, triage and redact secrets in source trees and git diffs."""

__version__ = "0.1.0"
