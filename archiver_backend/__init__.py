"""Backend for the session archiver.

This package intentionally keeps FastAPI route handlers thin:
- session registry + per-session status tracking
- size-bounded streaming upload storage with safe path handling
- background ZIP builds with progress reporting

Security note:
Session IDs are opaque strings handed out by /begin (UUID4). They become
directory names under the storage root, so they are validated strictly and
never trusted as paths.
"""
