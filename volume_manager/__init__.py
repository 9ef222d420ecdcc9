"""Volume lifecycle manager: storage accounting, placement and provisioning."""
