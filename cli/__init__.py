# Access Policy Engine - Command Line Interface
