"""
routers/ — HTTP surface of the procurement API

Thin route modules. Validation lives in schemas/, business logic in
services/. Each module exposes `router`, mounted in main.py.
"""
