"""Back office accounts, authentication and profile management."""
