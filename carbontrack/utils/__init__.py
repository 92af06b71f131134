# carbontrack/utils/__init__.py
