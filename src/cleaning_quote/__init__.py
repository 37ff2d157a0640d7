"""
Cleaning Quote Package

Builds, shares and manages service quotes for a home-appliance cleaning business.
Line items are priced by a declarative rule table, persisted to an object store
and then viewed, confirmed or cancelled through share links.
"""

__version__ = "1.0.0"
