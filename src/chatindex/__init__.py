"""chatindex — hybrid search over exported chat conversation archives."""
