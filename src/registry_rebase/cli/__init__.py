"""Command line interface for registry rebase (``rebase-image``)."""
