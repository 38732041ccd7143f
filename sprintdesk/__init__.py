"""Client-side data layer and application store for the SprintDesk tracker."""

__version__ = "0.1.0"
