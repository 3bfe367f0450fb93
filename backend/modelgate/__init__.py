"""
modelgate: model selection and ensemble verification for AI task routing.
"""
__version__ = "0.1.0"
