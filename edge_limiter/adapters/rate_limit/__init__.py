"""Window store adapters.

Two interchangeable implementations of the fixed-window-with-block contract:
an in-process store for single instances and tests, and a Redis store for
deployments where several processes must share one view of the counters.
"""
