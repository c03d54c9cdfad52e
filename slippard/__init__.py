"""
Slippard keeps key-value pairs in a file encrypted with your SSH key.

Values are encrypted with a random AES-256-GCM key, which is in turn
encrypted with the RSA key at SLP_KEY_PATH (default ~/.ssh/id_rsa). Both
are stored together in SLP_STORE_FILE (default ~/.config/slippard/store.dat).
Keys in PKCS#1 ('BEGIN RSA PRIVATE KEY') or OpenSSH format are supported.

Store and read a value:

\b
    $ slpd set db_password hunter2
    $ slpd get db_password
    hunter2

Values can be grouped by tag, and a bare KEY=VALUE is a shortcut for set.
The -t option belongs to each command, so it goes after the command or
KEY=VALUE, never before it:

\b
    $ slpd api_token=abc123 -t work
    $ slpd list -t work
    api_token

Show every pair in a tag as KEY=VALUE lines:

\b
    $ slpd dump -t work
"""

__author__ = 'coljac'
__version__ = '1.0.0'
