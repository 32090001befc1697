from cofacilitator.main import main

main()
