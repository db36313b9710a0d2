#!/usr/bin/env python3
"""Thin loader delegating CLI logic to the interface layer."""

import sys

from interface import blockout_app as _blockout_app

if __name__ != "__main__":
    # When imported, expose the full interface implementation directly.
    sys.modules[__name__] = _blockout_app
else:
    sys.exit(_blockout_app.main())
