# initialization/__init__.py
from initialization.policy import apply_initialization, conv_std

__all__ = ['apply_initialization', 'conv_std']
