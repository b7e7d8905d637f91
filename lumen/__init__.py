"""lumen-core: unified LLM provider gateway for the Lumen note editor."""

__version__ = "0.1.0"
