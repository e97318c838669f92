"""jobctl - operator CLI for the job queue"""

__version__ = "1.0.0"
