"""devflow: remote pipeline deployment and scripted branch merging."""

__version__ = "0.3.0"
