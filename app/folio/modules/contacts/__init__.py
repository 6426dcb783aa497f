"""
Contacts: people and organisations with author/customer/vendor/distributor roles.
"""
