"""Download VS Code extensions and VS Code server releases for offline use."""
