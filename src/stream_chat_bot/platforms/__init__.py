from .platform_interface import PlatformAdapter, PlatformContext

__all__ = ["PlatformAdapter", "PlatformContext"]
