"""Service layer: oracle client, settings, datastore access."""
