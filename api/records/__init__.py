"""
Generic record endpoints over the declared catalog.
"""
