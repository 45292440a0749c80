"""
                        Services Module

Business logic for the order pipeline.

Services:
    - lifecycle: order status state machine and authorization rules
    - timing: kitchen timing/priority engine
    - store: async order repository
    - orders: order use cases behind the HTTP API
    - submission: storefront cart and order payload builder
    - kitchen: polling kitchen display runtime
"""
