#!/usr/bin/env python3
"""
pwnyaa - Entry Point

Slack bot tracking pwnable.tw / pwnable.xyz progress.
The actual implementation is in the pwnyaa package.
"""

if __name__ == "__main__":
    from pwnyaa import main
    main()
