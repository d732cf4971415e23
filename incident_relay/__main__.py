from incident_relay.main import main

main()
