"""SRE workflow: demo service and deploy-and-rollback tooling."""

__version__ = "1.0.0"
