# This file makes the config directory a Python package.
