# backend/flightwatch/constants.py

"""
Global constants shared across modules, including the single User-Agent
string sent with every outbound request.
"""

USER_AGENT = "flightwatch/0.1 (flight status refresher)"

#: Separator between IATA code and date in cache keys ("AA123_2025-06-01").
KEY_SEP = "_"
