"""Back office HTTP API"""
