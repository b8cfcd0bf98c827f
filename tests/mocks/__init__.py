from .mock_destination import MockDestination

__all__ = ["MockDestination"]
