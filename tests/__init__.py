"""
Test suite for serlink.

Unit tests for framing, matching, events, configuration, the connection
lifecycle and the pyserial based transport and discovery layers.
"""
