"""
Helpdesk portal package.
"""
