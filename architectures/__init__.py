# architectures/__init__.py
