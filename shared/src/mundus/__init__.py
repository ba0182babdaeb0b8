"""Shared configuration, schemas and services for the Mundus digest service."""
