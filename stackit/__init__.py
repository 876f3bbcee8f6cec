"""Domain and consistency core of the Stackit question-and-answer service."""

__version__ = "0.1.0"
