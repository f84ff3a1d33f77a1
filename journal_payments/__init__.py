"""Payment transaction orchestration for the journal portal backend."""

__version__ = "0.1.0"
