"""Transport library for the iPort SM Buttons LAN keypad."""
