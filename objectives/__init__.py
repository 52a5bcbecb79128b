# objectives/__init__.py
