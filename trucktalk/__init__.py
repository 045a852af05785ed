"""trucktalk-connect: header mapping, validation and normalization for trucking load sheets."""

__version__ = "0.3.0"
