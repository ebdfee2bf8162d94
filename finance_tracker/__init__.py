"""Personal Finance Tracker package."""

__all__ = [
    "config",
    "data_loader",
    "categorizer",
    "analytics",
    "recommendations",
    "portfolio",
    "subscriptions",
    "bills",
    "reports",
    "models",
    "db",
    "services",
    "api",
    "webapp",
]

__version__ = "0.2.0"
