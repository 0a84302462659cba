"""HTTP surface — metrics exposition and audit log browsing."""
