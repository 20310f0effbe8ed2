"""Versioned MFJ policy tables, one YAML file per tax year."""
