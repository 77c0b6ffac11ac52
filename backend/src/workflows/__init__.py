"""Approval workflow engine, template store and HTTP surface"""
