"""BusinessGPT Beta: quota-guarded business chat backend."""

__version__ = "0.1.0"
