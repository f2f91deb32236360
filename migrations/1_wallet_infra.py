def migrate(migration):
    """Deploys the wallet implementation and the factory that clones it."""
    wallet = migration.deploy("Wallet", "WalletImplementation")
    factory = migration.deploy("Factory", "WalletFactory", wallet.address)

    print(
        f"\n\tWallet Factory:        {factory.address}"
        f"\n\tWallet Implementation: {wallet.address}"
    )
