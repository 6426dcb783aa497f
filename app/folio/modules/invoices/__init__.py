"""
Invoicing: invoices, line items and payments.
"""
