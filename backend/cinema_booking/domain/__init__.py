"""
Pure booking rules: status machine, seat encoding, tickets.
Nothing in this package touches the database.
"""
