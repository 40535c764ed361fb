"""
EmoCaptcha backend: facial-expression human verification
"""
__version__ = "1.0.0"
