"""Authentication and authorization for DocFlow"""
