"""reqtest - declarative HTTP test runner for .http files."""

__version__ = "0.1.0"
