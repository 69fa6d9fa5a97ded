"""Deploy Java application archives into Kubernetes for integration testing."""

__version__ = "0.1.0"
