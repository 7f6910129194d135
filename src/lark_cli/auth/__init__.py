"""User identity authentication: scopes, accounts, storage, tokens and OAuth."""
