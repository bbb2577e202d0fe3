"""
SnapCap Backend: Realtime Package
===================================

    - events.py:  inbound/outbound frame models
    - hub.py:     connection and room registry (`hub`)
    - gateway.py: the /ws endpoint
"""
