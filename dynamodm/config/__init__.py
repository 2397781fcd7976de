from .config import DynamoDMConfig, RetryOptions

__all__ = ["DynamoDMConfig", "RetryOptions"]
