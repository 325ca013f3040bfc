"""TuneSync - reconcile a local music library against a remote catalog."""

__version__ = "1.0.0"
