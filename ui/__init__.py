"""Terminal player: view state machine, control loop, key input and rendering."""
