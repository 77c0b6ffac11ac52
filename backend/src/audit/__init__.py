"""Activity logging"""
