"""usage_metrics – periodic host and process resource sampling."""

__version__ = "0.1.0"
