"""
Web application package for MCFaaS.

This package contains the HTTP surface of the control plane: routes, the
global error handler and the dispatch coordinator behind them.
"""
