"""Core module: clock helpers and the engine.

Import the engine from :mod:`bifrost.core.engine`; this package stays
import-light because the schemas depend on :mod:`bifrost.core.clock`.
"""
