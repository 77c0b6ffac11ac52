"""In-app notifications"""
