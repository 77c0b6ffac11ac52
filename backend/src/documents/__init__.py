"""Document review actions outside the workflow engine"""
