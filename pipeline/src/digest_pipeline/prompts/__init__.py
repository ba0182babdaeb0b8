"""Oracle prompt builders."""
