# carbontrack/services/__init__.py
